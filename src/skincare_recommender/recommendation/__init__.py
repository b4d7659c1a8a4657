"""
Recommendation layer (Skincare Recommender)

This package turns a guest profile into ranked product recommendations by
combining:
  - Semantic reasoning over the skincare knowledge graph (ingredients for a
    skin type / concern, conflicts, synergies)
  - Fuzzy mapping of ontology ingredients onto catalog ingredient lists
  - Weighted hybrid scoring with declared-sensitivity safety

When the graph or the catalog is degraded, a fallback chain keeps the same
output contract:
  SEMANTIC_REASONING -> BASIC_ONTOLOGY_FALLBACK -> DATABASE_BASIC_FALLBACK
  -> EMERGENCY_FALLBACK
"""
