# -*- coding: utf-8 -*-
"""
The 'hostprobe' package enumerates security-relevant configuration of Windows
hosts, locally or over the remote registry.

Each probe ("command") reads facts through a RegistryAccessor and yields
immutable result records. The Dispatcher selects probes, runs them against
one or many targets and renders every record with the formatter bound to its
type.
"""

__version__ = "1.0.0"
