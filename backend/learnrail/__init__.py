"""Learnrail learning platform backend.

The API is served by `learnrail.main:app`. Request handling is split
into a route table (`routing`, `routes`), access guards (`guards`),
thin controllers (`handlers`) and services that own the business rules
(`services`, `progress`, `scoring`, `gamification`, `tutor`).
"""
