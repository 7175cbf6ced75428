"""
WhatsApp Gateway Tests

Running Tests:
    # Run all tests
    pytest -v

    # Unit tests only
    pytest tests/unit -v

    # End-to-end scenarios
    pytest tests/test_gateway_integration.py -v

The protocol engine is replaced by the in-memory backend in tests/fakes.py;
no test touches the network.
"""
