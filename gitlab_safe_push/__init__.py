"""Gate git pushes on the state of GitLab CI pipelines."""
