"""Bio Atlas: hybrid vector + graph retrieval over a biomedical knowledge graph."""
