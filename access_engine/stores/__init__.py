from access_engine.stores.sql import SqlAccessStore

__all__ = ["SqlAccessStore"]
