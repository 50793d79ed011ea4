"""
File Mirror — Whole-file copy and removal between working trees.
"""
