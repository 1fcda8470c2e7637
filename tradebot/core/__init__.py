"""Trade-execution core: RPC gateway, custody, quoting, gas policy, orchestration and flows."""
