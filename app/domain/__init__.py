"""
Domain Package
==============
Entities, value objects and repository protocols for registrations,
parameter values and watering schedules.
"""
