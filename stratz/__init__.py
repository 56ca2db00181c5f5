"""STRATZ GraphQL access for DotaKeeper.

`stratz.client` holds the resilient transport (shared rate limiter, proxy pool
with failover, retry/backoff and the error taxonomy in `stratz.errors`);
`stratz.queries` holds the GraphQL documents and thin typed helpers that
return raw payload fragments for `records.mapper` to normalize.
"""
