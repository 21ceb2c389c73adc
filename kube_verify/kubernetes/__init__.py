"""Kubernetes API access: clients, pod and job queries, watches and polling."""
