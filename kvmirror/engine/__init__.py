"""
Engine — Secret lifecycle and mirror synchronization.

- versions: latest usable version of a secret
- mirror_writer: value-free mirror payloads and ordered mirror writes
- lifecycle: create / update / delete / undelete / destroy
- sync_check: drift detection between the secret and mirror trees
- resync: single-version mirror repair
- retention: permanent destruction of secrets past their schedule
"""
