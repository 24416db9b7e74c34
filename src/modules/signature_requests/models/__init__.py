from .signature_request import RequestMember, RequestStatus, SignatureRequest, TERMINAL_STATES

__all__ = ['RequestMember', 'RequestStatus', 'SignatureRequest', 'TERMINAL_STATES']
