"""vcsync: bidirectional object synchronization between a virtual and a host Kubernetes cluster."""

__version__ = "0.1.0"
