"""
Salon Reminders Tests

Running Tests:
    # Run all tests
    pytest tests -v

    # Run one module
    pytest tests/unit/test_scanner.py -v

Database-backed tests run against in-memory SQLite (aiosqlite); no
PostgreSQL, Redis or provider accounts are needed.

Test Coverage:
    - Due-window math and boundaries
    - Dedup guard and conflict-free log inserts
    - Template rendering, cancel tokens, default settings
    - SMSAPI / SendGrid transports
    - Dispatcher outcomes
    - Scanner end-to-end scenarios, retries and error isolation
    - Scheduler overlap guard, timeout and lifecycle
    - Operator and health endpoints
"""
