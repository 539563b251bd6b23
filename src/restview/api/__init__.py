"""API layer: the generic read/write surface over every registered entity.

Key rules:

1. Entities are addressed by logical (kebab-case) name, never by class
2. Filtering goes through the predicate builder; no hand-written queries
3. Results are shape values when a shape resolves, raw entities otherwise
4. Projection faults never reach the caller; they degrade to the raw entity
"""
