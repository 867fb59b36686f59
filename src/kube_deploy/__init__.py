"""Render, validate, apply and await Kubernetes manifests with kubectl."""

__version__ = "0.1.0"
