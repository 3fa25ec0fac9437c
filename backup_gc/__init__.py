"""
Garbage collection for expired backups.

Watches backup records and creates one DeleteBackupRequest for every backup
whose retention expiration has passed.

Modules:
- policy: expiration decision
- delete_requests: delete request factory
- gc_controller: reconciler and enqueue strategies
- controller / workqueue: generic controller runtime
- cache / informer: backup watch cache
- client / store: persistence
"""
