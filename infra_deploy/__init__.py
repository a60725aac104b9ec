"""infra-deploy: dependency-driven infrastructure deployment."""

__version__ = "0.3.0"
