"""Hypertools Meta information.
   Hypertools binds a user's devices to a single recovery-phrase identity
   and bootstraps the replicated store those devices share.
"""
__title__ = 'hypertools'
__description__ = (
   'Identity, device trust and encrypted vault core '
   'for a peer-replicated personal data store.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2024 Hypertools Contributors'
__author__ = 'Hypertools Contributors'
__license__ = 'Apache-2.0'
