# public/apps.py

"""
PUBLIC APP CONFIG

Storefront checkout surface (AllowAny unless noted):
- Event catalog + persisted cart
- Order create / pay / retry / status stream
- M-Pesa Daraja client + STK callback webhook
"""

from django.apps import AppConfig


class PublicConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "public"
    verbose_name = "Public Ticket Storefront"
