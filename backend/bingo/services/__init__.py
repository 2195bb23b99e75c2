"""Server-side services.

Adapters that connect the transport-agnostic room protocol in `bingo.sync`
to the application's database.
"""
