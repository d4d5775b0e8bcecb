"""
Core cross-cutting pieces: the exception taxonomy shared by the clients,
pipeline and CLI.
"""
