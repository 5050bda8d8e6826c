"""
Services Layer

Domain services for the match lifecycle:
- Accept domain inputs (session, actor id, ids, values)
- Return domain outputs (models, result dataclasses)
- Raise courtside.errors exceptions; never HTTP exceptions
- Authorize through permission_resolver before any mutation
"""
