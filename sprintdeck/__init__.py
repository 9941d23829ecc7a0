# SprintDeck: projects, tasks and a kanban board over a small JSON API
#
# Components:
#   schema.py   - Data model (Project, Task, ProjectMember, TaskStatus, Priority)
#   filters.py  - Pure filter/sort engine over project and task records
#   reducers.py - Filter state records, actions and reducer-backed stores
#   cache.py    - Keyed query cache with snapshot/restore for optimistic writes
#   client.py   - HTTP bindings for the JSON API (requests)
#   sync.py     - Cached queries and mutations, incl. optimistic status change
#   kanban.py   - Drag/drop gesture state machine for the swimlane board
#   store.py    - SQLite persistence backing the API server
#   server.py   - Flask JSON API server
#   config.py   - YAML + environment configuration

__version__ = "0.3.0"
