"""
Services module for GymBooking app

Business logic of the booking engine: capacity accounting, bookings, the
per-occurrence waitlist and its promotion rounds, and member notifications.
Services own the transactions; repositories only flush.
"""

# Inicializador del paquete services
