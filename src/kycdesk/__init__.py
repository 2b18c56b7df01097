"""
kycdesk — backend панели KYC-верификации (ссылки DIDit, статусы, отчёты).
"""

__version__ = "0.3.0"
