"""cachedfetch -- a resilient request pipeline shielded by an expiring cache.

The package issues remote calls with a per-attempt timeout, retries failures
with exponential backoff, classifies what went wrong, and keeps successful
results in an in-memory cache with a time-to-live so repeated requests do
not go remote again.

Typical use::

    from cachedfetch.client import CachedClient
    from cachedfetch.models import ClientConfig

    async with CachedClient(ClientConfig(base_url="https://api.example.com")) as client:
        result = await client.fetch("users:1", client.build_spec("/users/1"))
        user = result.unwrap()

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models for configuration and requests.
    config: XDG-aware configuration file and precedence resolution.
    cache: The expiring in-memory cache.
    client: Transport, executor, cached client and endpoint services.
    clock: Injectable time sources.
    cancellation: Caller-driven cancellation tokens.
    exceptions: Error taxonomy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting with Rich support.
"""

__version__ = "0.1.0"
