"""pipesmith — CI/CD pipes for building, scanning and deploying to Kubernetes."""

__version__ = "0.1.0"
