"""Plans module - workout-level plan mutations.

This module provides:
- Workout reference resolution (symbolic, literal id, fuzzy)
- Feedback classification and bounded parameter adjustment
- Injury downtime planning
- Window adaptation and next-block generation
"""
