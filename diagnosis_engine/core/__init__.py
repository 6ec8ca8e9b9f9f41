"""Core diagnostics pipeline: retrieval, prompting, completion, extraction."""
