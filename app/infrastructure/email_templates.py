"""
HTML email templates, rendered with Jinja2.
"""

from jinja2 import DictLoader, Environment, StrictUndefined, select_autoescape

_LAYOUT = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; border: 1px solid #e0e0e0; border-radius: 5px;">
  {% block body %}{% endblock %}
  <p>If you need to cancel your consultation, please contact us at least 24 hours before the scheduled time.</p>
  <p>For any queries, feel free to reach out to our support team.</p>
  <p>Best regards,<br>Ineffa Team</p>
</div>
"""

_DETAILS = """\
<div style="background-color: #f5f5f5; padding: 15px; margin: 20px 0; border-radius: 5px;">
  <h3 style="margin-top: 0; color: #333366;">{{ details_title }}</h3>
  <p><strong>Date:</strong> {{ date }}</p>
  <p><strong>Time:</strong> {{ time }}</p>
  <p><strong>Service:</strong> {{ service }}</p>
  {% if meeting_link %}
  <div style="margin-top: 15px; padding: 10px; background-color: #e6f3ff; border-radius: 5px;">
    <p style="margin: 0;"><strong>Zoom Meeting Link:</strong></p>
    <a href="{{ meeting_link }}" style="color: #0066cc; text-decoration: none; word-break: break-all;">{{ meeting_link }}</a>
  </div>
  {% endif %}
</div>
<div style="text-align: center; margin: 25px 0;">
  <a href="{{ reschedule_url }}" style="background-color: #4CAF50; color: white; padding: 12px 25px; text-decoration: none; border-radius: 5px; display: inline-block; font-weight: bold;">{{ reschedule_label }}</a>
</div>
"""

TEMPLATES = {
    "layout.html": _LAYOUT,
    "details.html": _DETAILS,
    "reminder.html": """\
{% extends "layout.html" %}
{% block body %}
<h2 style="color: #333366;">{{ heading }}</h2>
<p>Dear {{ name }},</p>
<p>{{ subheading }}</p>
{% with details_title="Consultation Details:", reschedule_label="Reschedule Appointment" %}{% include "details.html" %}{% endwith %}
{% endblock %}
""",
    "booking_confirmation.html": """\
{% extends "layout.html" %}
{% block body %}
<h2 style="color: #333366;">Consultation Booking Confirmation</h2>
<p>Dear {{ name }},</p>
<p>Thank you for booking a consultation with Ineffa. Your booking has been confirmed.</p>
{% with details_title="Booking Details:", reschedule_label="Reschedule Appointment" %}{% include "details.html" %}{% endwith %}
{% endblock %}
""",
    "reschedule_confirmation.html": """\
{% extends "layout.html" %}
{% block body %}
<h2 style="color: #333366;">Consultation Reschedule Confirmation</h2>
<p>Dear {{ name }},</p>
<p>Your consultation with Ineffa has been successfully rescheduled. Here are your updated booking details:</p>
{% with details_title="New Booking Details:", reschedule_label="Reschedule Again" %}{% include "details.html" %}{% endwith %}
{% endblock %}
""",
    "internal_alert.html": """\
<div style="font-family: Arial, sans-serif;">
  <h3>{{ title }}</h3>
  <p><strong>Client:</strong> {{ name }}</p>
  <p><strong>Email:</strong> {{ email }}</p>
  <p><strong>Date:</strong> {{ date }}</p>
  <p><strong>Time:</strong> {{ time }}</p>
  <p><strong>Service:</strong> {{ service }}</p>
</div>
""",
}

environment = Environment(
    loader=DictLoader(TEMPLATES),
    autoescape=select_autoescape(default=True),
    undefined=StrictUndefined,
)


def render_email(template_name: str, **fields) -> str:
    """Render one of the email templates to HTML."""
    return environment.get_template(template_name).render(**fields)
