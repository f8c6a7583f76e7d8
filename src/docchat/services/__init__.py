"""Application services wiring the core pipelines to their collaborators."""
