"""Build engine: domain model, build graph, pipelines and orchestration."""
