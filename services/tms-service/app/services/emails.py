"""Plantillas de correo. Cada función devuelve un `EmailMessage` listo para el Notifier."""
from datetime import date, time
from typing import Iterable, List, Optional

from app.schemas import EmailMessage

SIGNATURE = "Best regards,\nTMS Team"

def format_date(value: date) -> str:
    """'March 3rd 2025' (formato largo con ordinal)."""
    day = value.day
    if 11 <= day % 100 <= 13:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{value:%B} {day}{suffix} {value.year}"

def format_time(value: time) -> str:
    return value.strftime("%H:%M")

def unique_emails(emails: Iterable[Optional[str]], exclude: Iterable[str] = ()) -> List[str]:
    """Quita vacíos y duplicados conservando el orden."""
    excluded = {e.lower() for e in exclude if e}
    seen = set()
    result = []
    for email in emails:
        if not email:
            continue
        key = email.lower()
        if key in seen or key in excluded:
            continue
        seen.add(key)
        result.append(email)
    return result

def _message(to: List[str], subject: str, body: str) -> EmailMessage:
    text = "\n".join(line.strip() for line in body.strip().splitlines())
    return EmailMessage(to=to, subject=subject, body=f"{text}\n\n{SIGNATURE}\n")

# --- USUARIOS ---

def welcome_email(to: str, first_name: str) -> EmailMessage:
    return _message([to], "Welcome to TMS!", f"""
        Hello {first_name},

        Welcome to the Task Management System (TMS)! An account has been created for {to}.

        Please log in and change your password.
    """)

def department_change_email(recipients: List[str], full_name: str, email: str, role: str, department_name: str) -> EmailMessage:
    return _message(recipients, "Department Update Notification", f"""
        Hello,

        We wanted to inform you that {full_name} ({email}) has been added to your department ({department_name}).

        Role: {role}
    """)

# --- TAREAS ---

def assignment_email(recipients: List[str], task_title: str, due_date: date) -> EmailMessage:
    return _message(recipients, "New Task Assigned!", f"""
        Hello,

        You have been assigned a task: "{task_title}".
        Please complete it by {format_date(due_date)}
    """)

def task_reminder_email(recipients: List[str], task_title: str, hours_remaining: int = 24) -> EmailMessage:
    return _message(recipients, "Task Reminder", f"""
        Hello,

        This is a reminder for your task: "{task_title}".
        You have {hours_remaining} hours left to complete it.
    """)

def task_overdue_email(recipients: List[str], task_title: str, due_date: date) -> EmailMessage:
    return _message(recipients, "Overdue Task Alert", f"""
        Hello,

        The task "{task_title}" was due on {format_date(due_date)} and is now overdue.
        Please address this as soon as possible.
    """)

# --- PROYECTOS ---

def project_assignment_email(recipients: List[str], project_name: str, due_date: date) -> EmailMessage:
    return _message(recipients, "Welcome to a new project!", f"""
        Hello,

        You have been added as a member of the project "{project_name}".
        The project is due on {format_date(due_date)}.
    """)

def project_completed_email(recipients: List[str], project_name: str) -> EmailMessage:
    return _message(recipients, "Project Completed!", f"""
        Hello,

        Congratulations! The project "{project_name}" has been successfully completed.
    """)

def project_deleted_email(recipients: List[str], project_name: str) -> EmailMessage:
    return _message(recipients, "Project Deleted", f"""
        Hello,

        The project "{project_name}" has been deleted along with its tasks.
    """)

def project_overdue_email(recipients: List[str], project_name: str, due_date: date) -> EmailMessage:
    return _message(recipients, "Overdue Project Alert", f"""
        Hello,

        The project "{project_name}" was due on {format_date(due_date)} and is now overdue.
        Please review and take necessary actions.
    """)

def project_due_reminder_email(recipients: List[str], project_name: str, due_date: date) -> EmailMessage:
    return _message(recipients, "Project Due Reminder", f"""
        Hello,

        This is a reminder that the project "{project_name}" is due on {format_date(due_date)}.

        Please ensure all tasks are completed before that date.
    """)

# --- COLABORACIÓN ---

def comment_email(recipients: List[str], content: str, author_name: str, author_email: str, author_role: str, target: str) -> EmailMessage:
    return _message(recipients, f"New Comment by {author_name}", f"""
        Hello,

        A new comment has been posted by {author_name} on {target}.

        Comment:
        "{content}"

        Author's Details:
        Name: {author_name}
        Email: {author_email}
        Role: {author_role}

        If you would like to reply to this comment or discuss further, please visit the system.
    """)

def report_email(recipients: List[str], title: str, scope: str, content: str) -> EmailMessage:
    return _message(recipients, f"{title} Report", f"""
        Hello,

        Here is your {scope} report "{title}":

        {content}
    """)

# --- AGENDA ---

def meeting_invitation_email(recipients: List[str], title: str, agenda: str, day: date, start: time, end: time) -> EmailMessage:
    return _message(recipients, f"Meeting Invitation: {title}", f"""
        Hello,

        You have been invited to the meeting "{title}" on {format_date(day)}
        from {format_time(start)} to {format_time(end)}.

        Agenda:
        {agenda}
    """)

def event_created_email(recipients: List[str], title: str, event_type: str, day: date, start: time, end: time) -> EmailMessage:
    return _message(recipients, f"New {event_type}: {title}", f"""
        Hello,

        A new {event_type.lower()} "{title}" has been scheduled on {format_date(day)}
        from {format_time(start)} to {format_time(end)}.
    """)

def event_reminder_email(recipients: List[str], title: str, day: date, start: time) -> EmailMessage:
    return _message(recipients, "Event Reminder", f"""
        Hello,

        This is a reminder that "{title}" takes place tomorrow, {format_date(day)}, at {format_time(start)}.
    """)
