"""
Client side of the global financial state: live document subscription plus
the HTTPS callable used to request recomputation.
"""
