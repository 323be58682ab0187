#!/usr/bin/env python
"""
LeaveCore - Database Management CLI

Usage:
    python -m scripts.db_manage check        # Test database connection
    python -m scripts.db_manage migrate      # Run pending migrations
    python -m scripts.db_manage rollback     # Rollback last migration
    python -m scripts.db_manage current      # Show current migration version
    python -m scripts.db_manage history      # Show migration history
    python -m scripts.db_manage reset        # Drop all and recreate (dev only)
    python -m scripts.db_manage addemployee  # Add an employee to the directory
    python -m scripts.db_manage escalations  # List leave requests pending too long
"""

import sys

from leavecore.config import get_settings
from leavecore.database import check_connection, get_db_context
from leavecore.logging_config import configure_logging


settings = get_settings()


def _alembic_config():
    from alembic.config import Config

    return Config("alembic.ini")


def cmd_check():
    """Test database connection."""
    if settings.db_url:
        print(f"Connecting to: {settings.db_url}")
    else:
        print(f"Connecting to: {settings.db_server}/{settings.db_name}")
    try:
        check_connection()
        print("Connection successful!")
        return True
    except Exception as e:
        print(f"Connection failed: {e}")
        return False


def cmd_migrate():
    """Run pending Alembic migrations."""
    from alembic import command

    print("Running migrations...")
    command.upgrade(_alembic_config(), "head")
    print("Migrations complete!")
    return True


def cmd_rollback():
    """Rollback the last migration."""
    if not settings.debug:
        print("ERROR: rollback is only available in debug mode")
        return False

    from alembic import command

    print("Rolling back last migration...")
    command.downgrade(_alembic_config(), "-1")
    print("Rollback complete!")
    return True


def cmd_current():
    """Show current migration version."""
    from alembic import command

    command.current(_alembic_config())
    return True


def cmd_history():
    """Show migration history."""
    from alembic import command

    command.history(_alembic_config())
    return True


def cmd_reset():
    """Drop all tables and recreate with migrations."""
    if not settings.debug:
        print("ERROR: reset is only available in debug mode")
        return False

    confirm = input("This will DELETE ALL DATA. Type 'yes' to confirm: ")
    if confirm.lower() != "yes":
        print("Aborted")
        return False

    if settings.is_sqlite:
        from leavecore.database import drop_db, init_db

        print("Recreating SQLite sandbox schema...")
        drop_db()
        init_db()
        print("Reset complete!")
        return True

    from alembic import command

    alembic_cfg = _alembic_config()

    print("Rolling back all migrations...")
    try:
        command.downgrade(alembic_cfg, "base")
    except Exception as e:
        print(f"Rollback failed (maybe no tables exist): {e}")

    print("Running all migrations...")
    command.upgrade(alembic_cfg, "head")

    print("Reset complete!")
    return True


def cmd_addemployee():
    """Add an employee to the directory."""
    from sqlalchemy import select
    from leavecore.models.employee import Employee, EMPLOYEE_ROLES, EMPLOYMENT_TYPES

    code = input("Employee code: ").strip().upper()
    if not code:
        print("Employee code required")
        return False

    first_name = input("First name: ").strip()
    last_name = input("Last name: ").strip()
    if not first_name or not last_name:
        print("First and last name required")
        return False

    department = input("Department (optional): ").strip() or None
    grade = input("Grade (optional): ").strip() or None

    employment_type = (input(f"Employment type {EMPLOYMENT_TYPES} [PERMANENT]: ").strip().upper()
                       or "PERMANENT")
    if employment_type not in EMPLOYMENT_TYPES:
        print(f"Employment type must be one of {', '.join(EMPLOYMENT_TYPES)}")
        return False

    role = input(f"Role {EMPLOYEE_ROLES} [employee]: ").strip().lower() or "employee"
    if role not in EMPLOYEE_ROLES:
        print(f"Role must be one of {', '.join(EMPLOYEE_ROLES)}")
        return False

    manager_code = input("Manager employee code (optional): ").strip().upper()

    with get_db_context() as db:
        existing = db.execute(
            select(Employee).where(Employee.employee_code == code)
        ).scalar_one_or_none()
        if existing:
            print(f"Employee '{code}' already exists")
            return False

        manager_id = None
        if manager_code:
            manager = db.execute(
                select(Employee).where(Employee.employee_code == manager_code)
            ).scalar_one_or_none()
            if not manager:
                print(f"Manager '{manager_code}' not found")
                return False
            manager_id = manager.employee_id

        employee = Employee(
            employee_code=code,
            first_name=first_name,
            last_name=last_name,
            department=department,
            grade=grade,
            employment_type=employment_type,
            role=role,
            manager_id=manager_id,
        )
        db.add(employee)
        db.commit()

        print(f"Added {employee.full_name} (ID {employee.employee_id})")

    return True


def cmd_escalations():
    """List PENDING leave requests older than the escalation threshold."""
    from leavecore.services.escalation import EscalationMonitor

    with get_db_context() as db:
        escalations = EscalationMonitor(db, settings).find_escalations()

        if not escalations:
            print(f"No requests pending longer than {settings.escalation_threshold_days} days")
            return True

        for item in escalations:
            request = item.request
            approver = request.approver.full_name if request.approver else "-"
            print(
                f"#{request.request_id:<6} {request.employee.full_name:<30} "
                f"{request.start_date} -> {request.end_date}  "
                f"pending {item.pending_days}d  approver: {approver}"
            )

    return True


def cmd_help():
    """Show help."""
    print(__doc__)
    return True


COMMANDS = {
    "check": cmd_check,
    "migrate": cmd_migrate,
    "rollback": cmd_rollback,
    "current": cmd_current,
    "history": cmd_history,
    "reset": cmd_reset,
    "addemployee": cmd_addemployee,
    "escalations": cmd_escalations,
    "help": cmd_help,
}


def main():
    if len(sys.argv) < 2:
        cmd_help()
        sys.exit(1)

    configure_logging(settings)
    command = sys.argv[1].lower()

    if command not in COMMANDS:
        print(f"Unknown command: {command}")
        cmd_help()
        sys.exit(1)

    success = COMMANDS[command]()
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
