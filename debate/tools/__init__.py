"""
Tools Module
"""

from debate.tools.memory import ContextStore
from debate.tools.search import perform_web_search
from debate.tools.billing import RazorpayClient, BillingError

__all__ = ['ContextStore', 'perform_web_search', 'RazorpayClient', 'BillingError']
