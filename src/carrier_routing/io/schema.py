# src/carrier_routing/io/schema.py
from __future__ import annotations


# Input columns of an orders workbook (one package per row)
COL_ORDER_NUMBER = "Order Number"
COL_NAME = "Recipient"
COL_STREET1 = "Street 1"
COL_STREET2 = "Street 2"
COL_CITY = "City"
COL_STATE = "State"
COL_POSTAL_CODE = "Postal Code"
COL_COUNTRY = "Country"
COL_PHONE = "Phone"
COL_WEIGHT_OZ = "Weight (oz)"
COL_QUANTITY = "Quantity"
COL_LENGTH = "Length (in)"
COL_WIDTH = "Width (in)"
COL_HEIGHT = "Height (in)"

REQUIRED_INPUT_COLUMNS = [
    COL_ORDER_NUMBER,
    COL_STREET1,
    COL_CITY,
    COL_STATE,
    COL_POSTAL_CODE,
]

OPTIONAL_INPUT_COLUMNS = [
    COL_NAME, COL_STREET2, COL_COUNTRY, COL_PHONE, COL_WEIGHT_OZ,
    COL_QUANTITY, COL_LENGTH, COL_WIDTH, COL_HEIGHT,
]

# Columns appended by BatchRouter, in this order
OUTPUT_ROUTING_COLUMNS = [
    "RoutedCarrier",
    "Service",
    "Cost",
    "DiscountRate",
    "CheapestCompetitor",
    "CompetitorRate",
    "Savings",
    "SavingsPct",
    "Zone",
    "Eligible",
    "Reason",
    "AddressWarnings",
    "TrackingNumber",
    "Error",
]

ROUTED_SHEET = "Routed"
SUMMARY_SHEET = "Summary"
SUMMARY_COLUMNS = ["Carrier", "Orders", "TotalCost", "TotalSavings"]
