"""
Recommendation ranking engine.

Responsibilities:
- Pair restaurants with their menu items and collapse duplicate dishes.
- Bound the candidate pool with a cheap preliminary score.
- Score candidates against goal, time of day, last meal, price and distance.
- Rank with the LLM when available, locally otherwise, and explain each pick.
"""
