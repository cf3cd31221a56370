"""Production execution domain: work orders, work results and equipment downtime."""
