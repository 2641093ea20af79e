"""HTTP binding for the attendance and payroll engine."""
