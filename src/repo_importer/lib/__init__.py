"""Core library: configuration, GitHub access, hierarchy, store, pipeline.

Primary modules:
- ``repo_importer.lib.importer`` for the import pipeline and content sweep.
- ``repo_importer.lib.github`` for the remote repository client.
- ``repo_importer.lib.store`` for the workspace store.
"""
