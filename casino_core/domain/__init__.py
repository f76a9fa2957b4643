"""Domain layer (pure game math).

- Outcome engines, hand evaluators, paytables and wager ladders live here.
- Avoid I/O: no DB sessions, no HTTP/FastAPI, no Redis.
- Randomness is always passed in as an RNG provider argument.
"""
