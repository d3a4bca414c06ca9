"""
ATS Period Gateway Package
"""
from .period_gateway import (
    PeriodDataGateway, SQLAlchemyPeriodGateway, InMemoryPeriodGateway, link_withholdings
)

__all__ = [
    'PeriodDataGateway', 'SQLAlchemyPeriodGateway', 'InMemoryPeriodGateway', 'link_withholdings'
]
