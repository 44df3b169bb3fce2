from .certificate_reminders import send_certificate_expiry_reminders, start_certificate_reminder_job

__all__ = ['send_certificate_expiry_reminders', 'start_certificate_reminder_job']
