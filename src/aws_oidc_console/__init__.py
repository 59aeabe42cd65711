"""Sign in with an OIDC provider and open the AWS console with web-identity federation."""

__version__ = "0.1.0"
