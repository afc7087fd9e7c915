"""
aakit - Account-Abstraction Core

Creates, addresses, configures and authorizes ERC-4337 smart accounts with
ERC-7579 modules across several account implementations.

Main Components:
- Accounts: provider adapters (Safe, Nexus, Kernel, Startale, Passport) and the account facade
- Modules: default module setup, validator builders and on-chain reads
- Signing: owner, passkey, multi-factor, session and guardian signatures
- Sessions: smart-session permissions and policies
- Deployment: standard, EIP-7702 delegation and intent-triggered deployment
- Actions: owner management and social recovery calls
"""

__version__ = "0.1.0"
__author__ = "aakit Development Team"

__all__ = []
