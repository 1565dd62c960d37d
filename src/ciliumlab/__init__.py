"""
ciliumlab — Cilium lab fleets on Compute Engine.

Provisions a handful of VMs, opens the lab firewall rules, installs a
kind cluster with Cilium on each one, and leaves behind the scripts to
reach the services and to tear everything down again.
"""

import os

__version__ = "0.1.0"
__author__ = "ciliumlab contributors"

LAB_HOME = os.environ.get("CILIUMLAB_HOME", "~/.ciliumlab")
