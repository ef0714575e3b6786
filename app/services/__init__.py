"""
Services module.

- market: upstream client, payload transformation, freshness decisions
- sync: the sync orchestrator and its side channels
- markets: derived market probabilities
- betting: same-game parlay generation
"""
