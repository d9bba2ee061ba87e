"""
CLI — click commands for the `kvmirror secret` group.
"""
