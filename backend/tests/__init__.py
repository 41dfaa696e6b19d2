# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
ArcaneTasks Backend Tests

Test organization:
- test_versioning.py: If-Match parsing, ETag formatting, atomic versioned updates
- test_task_store.py: In-memory and SQL stores, including concurrent writers
- test_task_service.py: Logging and notification behavior of the service layer
- test_tasks_api.py: HTTP contract for /tasks and /api/v1/tasks
- test_health.py: Liveness, readiness and metrics endpoints
- test_event_bus.py / test_logging_config.py: Supporting infrastructure
"""
