# Services are imported by module where needed, e.g.:
# from services.sessions import SessionStore
# from services.authenticator import PortalAuthenticator

__all__ = []
