from simtrader.strategy.base import Strategy
