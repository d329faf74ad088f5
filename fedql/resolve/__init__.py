"""apiName to physicalName resolution."""
