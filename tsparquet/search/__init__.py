"""Tables, matchers, constraints and the select, label names and label values lookups."""