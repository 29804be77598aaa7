"""Transactional email: a fire-and-forget queue plus message builders."""
