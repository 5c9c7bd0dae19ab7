"""Multipart file upload module.

Uploads are size capped before parsing, classified by their leading bytes
rather than the declared content type, checked against an allow-list and
written to disk under random names that keep the original extension.

A batch is all-or-nothing: one rejected part removes every file the same
call already stored.
"""
