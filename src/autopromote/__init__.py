"""GitHub App webhook receiver that promotes a branch into the integration branch.

This package provides:
- GitHub webhook signature verification and push event parsing
- GitHub App authentication (JWT + installation tokens)
- An async GitHub REST client with retry and rate limit handling
- The workflow runner: create pull request, squash merge, delete branch
- Event emission and Prometheus metrics
"""
