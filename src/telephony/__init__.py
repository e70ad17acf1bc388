"""Telephony bridge: maps stateless provider webhooks onto live conversations.

Each call is a chain of independent HTTP requests correlated by the provider's
call sid. Conversational state lives in the session registry between requests;
markup returned to the provider drives the call.
"""
