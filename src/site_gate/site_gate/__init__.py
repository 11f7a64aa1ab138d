"""Site Gate package.

Gate-side presence and item custody for a construction site, organized by
feature modules (workers, visits, custody, exit_gate, reports, ...) with a
thin Flask controller layer over service/repository layers.
"""
