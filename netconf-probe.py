#!/usr/bin/env python3
"""
NETCONF probe.

Connects to a device over the SSH netconf subsystem, sends one RPC and prints
(or saves) the reply, optionally keeping only the list entries that match a
start-with(field,'prefix') predicate.
"""

from ncprobe.main import entrypoint

if __name__ == "__main__":
    entrypoint()
