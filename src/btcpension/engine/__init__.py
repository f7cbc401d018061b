"""Rates, fees, participant accounting and collateralised lending."""
