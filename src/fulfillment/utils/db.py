from protean.domain import Domain
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url

_SQL_PROVIDERS = ("sqlite", "postgresql")


def database_config(database_uri: str) -> dict:
    """Provider settings for ``database_uri``, keyed the way Protean expects them."""
    backend = make_url(database_uri).get_backend_name()
    if backend not in _SQL_PROVIDERS:
        raise ValueError(f"Unsupported database backend: {backend}")
    return {"provider": backend, "database_uri": database_uri}


def setup_db(domain: Domain):
    """Setup database schema"""
    with domain.domain_context():
        for _, provider in domain.providers.items():
            if provider.conn_info["provider"] in _SQL_PROVIDERS:
                engine = create_engine(provider.conn_info["database_uri"])

                for _, aggregate_record in domain.registry.aggregates.items():
                    if aggregate_record.cls.meta_.provider == provider.name:
                        domain.repository_for(aggregate_record.cls)._dao  # noqa: B018

                for _, entity_record in domain.registry.entities.items():
                    if entity_record.cls.meta_.provider == provider.name:
                        domain.repository_for(entity_record.cls)._dao  # noqa: B018

                provider._metadata.create_all(engine)


def drop_db(domain: Domain):
    """Drop database schema"""
    with domain.domain_context():
        for _, provider in domain.providers.items():
            if provider.conn_info["provider"] in _SQL_PROVIDERS:
                engine = create_engine(provider.conn_info["database_uri"])
                provider._metadata.drop_all(engine)
