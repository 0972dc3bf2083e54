# -*- coding: utf-8 -*-
"""
The 'core' package holds the enumeration pipeline: targets, registry access,
the command contract, the catalog and the dispatcher.
"""
