"""
CareBook

A FastAPI-based doctor appointment booking API: patients browse doctors,
book and pay for appointments, doctors manage their schedules and admins
onboard doctors and oversee bookings.
"""

__version__ = "2.0.0"
