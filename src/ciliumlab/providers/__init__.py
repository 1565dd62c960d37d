"""
Providers — the external collaborators a lab run talks to.

GCPCompute drives the Compute Engine control plane; GcloudChannel moves
files and commands over SSH. The orchestration core depends on the
CloudBackend interface only, so tests swap in fakes.
"""

from .base import CloudBackend
from .gcloud import GcloudChannel, detect_project
from .gcp import GCPCompute

__all__ = ["CloudBackend", "GCPCompute", "GcloudChannel", "detect_project"]
