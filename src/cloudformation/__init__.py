"""
CloudFormation stack management utilities.
"""

from .stack_manager import StackManager, TemplateParseError, parse_template

__all__ = ["StackManager", "TemplateParseError", "parse_template"]
