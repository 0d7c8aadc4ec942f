"""
Barangay Management System.

A Flask application for keeping barangay records: residents, households,
officials, ordinances, activities, reports, certificates and documents.
Use `barangay_system.app.create_app` to build the application.
"""

__all__ = []
