"""
Complex survey design and design-based variance estimation
"""

from .design import SurveyDesign, FittedModel

__all__ = ['SurveyDesign', 'FittedModel']
