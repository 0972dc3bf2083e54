# -*- coding: utf-8 -*-
"""
The 'output' package provides the formatter base classes and the sinks that
rendered output is written to.
"""
