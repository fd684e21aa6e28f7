"""Authentication and authorization.

Session lifecycle:
1. login → access + refresh JWT pair, refresh token stored on the account
2. every request → access token (Bearer header or cookie) → current account
3. refresh → stored token compared, new pair rotated in with compare-and-set
4. logout → stored refresh token cleared

Mutations of owned resources go through the OwnershipGuard.
"""
